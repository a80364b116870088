"""AdRemix Gateway -- FastAPI 应用层"""
