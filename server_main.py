#!/usr/bin/env python3
"""Habit reminder server: hourly reminder ticks, streak milestones and analytics."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from api.routes import router as api_router
from config.config_loader import load_config
from habit.dispatcher import MessageSender
from habit.service import build_services
from habit.storage import HabitStorage
from integrations.mail import build_sender, load_mail_config


def load_environment():
    """Load .env from the project root unless running in a container."""
    if os.getenv("PRODUCTION", "false").lower() == "true":
        logger.info("Running in production - using environment variables")
        return
    env_path = Path(__file__).parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded environment variables from {env_path}")


def configure_logging(config: dict[str, Any]):
    logging_cfg = config.get("logging", {}) or {}
    level = str(logging_cfg.get("level", "INFO")).upper()
    log_file = logging_cfg.get("file", "logs/habits_{time:YYYY-MM-DD}.log")

    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    logger.remove()
    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | <cyan>{name}:{function}:{line}</cyan> | {message}",
    )


def create_app(
    config: Optional[dict[str, Any]] = None,
    sender: Optional[MessageSender] = None,
    storage: Optional[HabitStorage] = None,
) -> FastAPI:
    """Build the FastAPI app. Services are created here, the scheduler starts with the app."""
    config = config if config is not None else load_config()
    if sender is None:
        sender = build_sender(load_mail_config((config.get("mail", {}) or {})))
    services = build_services(config, sender, storage=storage)

    app = FastAPI(
        title="Habit Reminder Server",
        description="Hourly habit reminders, streak milestones and habit analytics",
        version="1.0.0",
    )
    frontend_url = services.frontend_url
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[frontend_url, "http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    app.state.services = services
    app.state.start_time = datetime.now(timezone.utc)

    @app.on_event("startup")
    async def startup_event():
        services.scheduler.start()
        logger.info("Server startup complete")

    @app.on_event("shutdown")
    async def shutdown_event():
        await services.scheduler.stop()
        services.close()
        logger.info("Server shutdown complete")

    return app


def main():
    """Main server entry point."""
    load_environment()
    config = load_config("habits_config.json")
    configure_logging(config)

    logger.info("Starting habit reminder server...")
    app = create_app(config)

    server_cfg = config.get("server", {}) or {}
    uvicorn.run(
        app,
        host=server_cfg.get("host", "0.0.0.0"),
        port=int(server_cfg.get("port", 8000)),
        log_level="warning",
        access_log=False,
        reload=False,
    )


if __name__ == "__main__":
    main()
