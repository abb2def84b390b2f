"""运行配置"""
