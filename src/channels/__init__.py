"""消息通道与提醒投递出口"""
