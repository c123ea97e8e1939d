"""
Media Album - 主入口
基于FastAPI的微内核架构，相册媒体功能以模块形式挂载

- 请求日志中间件
- 标准化错误处理
- 模块加载与生命周期管理
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.database import init_db, close_db
from core.loader import init_loader, get_module_loader
from core.events import event_bus, Events, Event
from core.middleware import RequestLoggingMiddleware
from core.errors import register_exception_handlers

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # ==================== 启动阶段 ====================
    current_settings = get_settings()
    logger.info(f"🚀 正在启动 {current_settings.app_name} v{current_settings.app_version}...")

    # 初始化数据库
    await init_db()

    await event_bus.publish(Event(name=Events.SYSTEM_STARTUP, source="kernel"))
    logger.info(f"🎉 {current_settings.app_name} 启动完成! 访问: http://localhost:8000")

    yield

    # ==================== 关闭阶段 ====================
    logger.info("🛑 系统关闭中...")
    await event_bus.publish(Event(name=Events.SYSTEM_SHUTDOWN, source="kernel"))
    await close_db()
    logger.info("👋 系统已关闭")


# ==================== 创建应用 ====================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="相册媒体整理服务：目录分类、拖拽排序、分组配置",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# ==================== 中间件配置（顺序重要，后添加的先执行） ====================

# 1. CORS 跨域配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制为具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# 2. 请求日志中间件
app.add_middleware(
    RequestLoggingMiddleware,
    skip_paths=["/health", "/api/docs", "/api/redoc", "/api/openapi.json"],
    slow_request_threshold=1.0  # 超过1秒的请求记录为慢请求
)


# ==================== 异常处理器 ====================
register_exception_handlers(app)


# ==================== 加载模块路由 ====================
loader = init_loader(app)
results = loader.load_all()
logger.info(f"✅ 已加载 {sum(1 for v in results.values() if v)} 个模块")


# ==================== 根路由 ====================
@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/api/docs"
    }


@app.get("/health", include_in_schema=False)
async def health():
    """健康检查"""
    return {"status": "ok", "version": settings.app_version}


@app.get("/api", include_in_schema=False)
async def api_info():
    """API 信息"""
    module_loader = get_module_loader()
    modules = module_loader.get_module_info_for_frontend() if module_loader else []

    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/api/docs",
        "health": "/health",
        "modules": [
            {"id": m["id"], "name": m["name"], "version": m["version"]}
            for m in modules
        ]
    }


# ==================== 启动入口 ====================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
