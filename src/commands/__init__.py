"""用户命令: newreminder / listreminder / editreminder / delreminder / help"""
