"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import messages as messages_routes
from api.routes import live_chat as live_chat_routes
from api.routes import notifications as notifications_routes
from api.routes import presence as presence_routes
from api.routes import ws as ws_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionRegistry
from infrastructure.realtime.room_bus import RoomBus
from application.services.messaging_service import MessagingService
from application.services.notification_service import NotificationRelay
from application.services.presence_service import PresenceService
from application.services.realtime_service import HubService
from application.services.token_service import TokenService
from application.services.typing_service import TypingRelay
from application.services.topic_poller import build_market_pollers


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


async def init_realtime(app: FastAPI, uow_factory=SQLAlchemyUnitOfWork) -> None:
    """组装实时中心：连接注册表 -> 房间总线 -> 在线状态/消息/通知/输入状态"""
    broker = InMemoryRealtimeBroker()
    registry = ConnectionRegistry()
    bus = RoomBus(broker=broker, registry=registry)
    await bus.start()

    presence = PresenceService(uow_factory=uow_factory, bus=bus)
    registry.set_presence_listener(presence)
    typing = TypingRelay(bus=bus)
    token_service = TokenService()

    app.state.realtime_broker = broker
    app.state.connection_registry = registry
    app.state.room_bus = bus
    app.state.token_service = token_service
    app.state.presence_service = presence
    app.state.messaging_service = MessagingService(uow_factory=uow_factory, bus=bus)
    app.state.notification_relay = NotificationRelay(uow_factory=uow_factory, bus=bus)
    app.state.hub_service = HubService(
        registry=registry,
        bus=bus,
        presence=presence,
        typing=typing,
        token_service=token_service,
    )

    pollers, clients = build_market_pollers(settings.market_data, bus)
    for poller in pollers:
        poller.start()
    app.state.topic_pollers = pollers
    app.state.market_data_clients = clients
    logger.info("realtime_initialized", broker="inmemory", pollers=[p.name for p in pollers])


async def shutdown_realtime(app: FastAPI) -> None:
    for poller in getattr(app.state, "topic_pollers", []):
        await poller.stop()
    for client in getattr(app.state, "market_data_clients", []):
        await client.close()

    registry = getattr(app.state, "connection_registry", None)
    if registry is not None:
        await registry.drain()
        await registry.close_all()
    bus = getattr(app.state, "room_bus", None)
    if bus is not None:
        await bus.aclose()
    logger.info("realtime_shutdown")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_schema_expected", message="No auto-create in production")

    await init_realtime(app)

    yield

    await shutdown_realtime(app)
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="社交信息流的实时在线状态、消息与通知中心",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(messages_routes.router, prefix="/api/v1")
app.include_router(live_chat_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")
app.include_router(presence_routes.router, prefix="/api/v1")
app.include_router(ws_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "websocket": "/api/v1/ws",
        }
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    registry = getattr(app.state, "connection_registry", None)
    return success_response(data={
        "status": "healthy",
        "connections": len(registry) if registry is not None else 0,
    })


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
