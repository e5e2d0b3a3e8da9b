"""
main.py – Punto de entrada de duet.

Carga configuración, inicializa el pipeline y sirve el WebUI, o corre
un único run en consola con --seed.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from . import __version__


def setup_logging(level: str = "INFO") -> None:
    """Configura logging global (consola + archivo)."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s │ %(name)-20s │ %(levelname)-5s │ %(message)s"
    datefmt = "%H:%M:%S"

    # Crear directorio de logs
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"duet_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level)

    # Console handler
    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    root.addHandler(console)

    # File handler (con fecha completa)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)

    logging.getLogger("duet").info("Log file: %s", log_file)

    # Silenciar loggers ruidosos
    for noisy in ["httpx", "httpcore", "openai", "aiohttp.access"]:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="duet", description="Conversación por turnos entre dos agentes de IA"
    )
    parser.add_argument("--config", default="config.yaml", help="ruta a config.yaml")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument(
        "--seed", help="mensaje inicial: corre un run en consola sin WebUI"
    )
    parser.add_argument(
        "--direction",
        default="ai1-to-ai2",
        choices=["human-to-ai1", "human-to-ai2", "ai1-to-ai2", "ai2-to-ai1"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Punto de entrada principal."""
    args = _parse_args(argv)

    # Cargar variables de entorno (.env)
    load_dotenv()

    setup_logging(args.log_level)
    logger = logging.getLogger("duet")

    logger.info("╔══════════════════════════════════════╗")
    logger.info("║        duet – AI ↔ AI Conversation   ║")
    logger.info("║              v%-22s ║", __version__)
    logger.info("╚══════════════════════════════════════╝")

    from .config import load_config

    config = load_config(args.config)
    if args.seed:
        config.webui.enabled = False
    logger.info("Config cargado ✓")

    from .pipeline import DuetPipeline

    pipeline = DuetPipeline(config)

    try:
        pipeline.load()
    except Exception as exc:
        logger.error("Error cargando módulos: %s", exc, exc_info=True)
        sys.exit(1)

    async def _run() -> None:
        if args.seed:
            await pipeline.run_headless(args.direction, args.seed)
        else:
            await pipeline.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrumpido por usuario")
    except ValueError as exc:
        # ConversationValidationError en modo headless
        logger.error("%s", exc)
        sys.exit(2)
    finally:
        logger.info("Hasta luego 👋")


if __name__ == "__main__":
    main()
