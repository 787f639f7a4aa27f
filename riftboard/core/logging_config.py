"""
Configuración centralizada de logging para la aplicación
- Logs rotativos con límite de 200MB
- Formato detallado con timestamps
- Archivos separados para errores, tiempos y requests
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from datetime import datetime
from typing import Optional

# Formato detallado para logs
LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)-30s | "
    "%(funcName)-20s | Line %(lineno)-4d | %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Configuración de tamaños
MAX_BYTES = 200 * 1024 * 1024  # 200 MB
BACKUP_COUNT = 5


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: int = logging.INFO, logs_dir: str = "logs", to_files: bool = True):
    """
    Configura el sistema de logging de la aplicación

    Args:
        level: Nivel de logging (logging.DEBUG, logging.INFO, etc.)
        logs_dir: Directorio donde se escriben los archivos rotativos
        to_files: Si es False solo se configura la consola (tests, CLI)
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # ============== ROOT LOGGER ==============
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # ============== CONSOLE HANDLER ==============
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # ============== FILE HANDLERS ==============
    if to_files:
        logs_path = Path(logs_dir)
        logs_path.mkdir(parents=True, exist_ok=True)

        # 1. Todos los logs (INFO y superior)
        root_logger.addHandler(_rotating_handler(logs_path / "app.log", logging.INFO, formatter))

        # 2. Solo errores
        root_logger.addHandler(_rotating_handler(logs_path / "errors.log", logging.ERROR, formatter))

        # 3. Tiempos de llamadas a Riot / Supabase
        performance_handler = _rotating_handler(logs_path / "performance.log", logging.DEBUG, formatter)
        performance_handler.addFilter(lambda record: "[TIMING]" in record.getMessage())
        root_logger.addHandler(performance_handler)

        # 4. Requests HTTP
        requests_handler = _rotating_handler(logs_path / "requests.log", logging.INFO, formatter)
        requests_handler.addFilter(lambda record: "[REQUEST]" in record.getMessage())
        root_logger.addHandler(requests_handler)

    # ============== LOGGERS ESPECÍFICOS ==============

    # Reducir verbosidad de librerías externas
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("=" * 80)
    logger.info(f"Sistema de logging inicializado - Nivel: {logging.getLevelName(level)}")
    if to_files:
        logger.info(f"Directorio de logs: {Path(logs_dir).absolute()}")
        logger.info(f"Tamaño máximo por archivo: {MAX_BYTES / (1024*1024):.0f} MB")
    logger.info("=" * 80)


class TimingLogger:
    """
    Context manager para medir y loggear tiempos de ejecución

    Uso:
        with TimingLogger("Riot GET match", __name__):
            response = await client.get(url)
    """

    def __init__(self, operation_name: str, logger_name: Optional[str] = None, level: int = logging.DEBUG):
        self.operation_name = operation_name
        self.logger = logging.getLogger(logger_name or __name__)
        self.level = level
        self.start_time = None
        self.elapsed: Optional[float] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"[TIMING] Iniciando: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.log(
                self.level,
                f"[TIMING] Completado: {self.operation_name} | "
                f"Tiempo: {self.elapsed:.3f}s"
            )
        else:
            self.logger.warning(
                f"[TIMING] Error en: {self.operation_name} | "
                f"Tiempo antes del error: {self.elapsed:.3f}s | "
                f"Error: {exc_val}"
            )

        return False  # No suprimir la excepción
