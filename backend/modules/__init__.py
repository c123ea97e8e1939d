"""
业务模块包
"""
