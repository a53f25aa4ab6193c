import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__, config
from .api.calculation_api import router as calculation_router
from .services.worker_pool import shutdown_worker_pool

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"统计计算引擎启动, 执行模式: {config.EXECUTION_MODE}")
    yield
    shutdown_worker_pool()
    logger.info("统计计算引擎已关闭")


app = FastAPI(
    title="统计计算引擎服务",
    description="频率分析、描述统计、探索分析与交叉表计算API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境请设置具体的域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(calculation_router, prefix="/api/v1/statistics", tags=["统计计算API"])


@app.get("/")
async def root():
    return {
        "message": "统计计算引擎服务",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "execution_mode": config.EXECUTION_MODE}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stat_engine.main:app", host="0.0.0.0", port=8000, reload=False)
