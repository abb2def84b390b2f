"""提醒子系统: 时间表达式解析 / 时间规则运算 / 调度"""
