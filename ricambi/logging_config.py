import sys
from pathlib import Path
from contextvars import ContextVar
from typing import Optional, Dict, Any

from loguru import logger

from ricambi.config import get_settings

# Context variables for customer, operator and kit ids
customer_id_var: ContextVar[Optional[str]] = ContextVar("customer_id", default=None)
operator_id_var: ContextVar[Optional[str]] = ContextVar("operator_id", default=None)
kit_id_var: ContextVar[Optional[str]] = ContextVar("kit_id", default=None)

_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | "
    "customer_id={extra[customer_id]} | operator_id={extra[operator_id]} | "
    "kit_id={extra[kit_id]} | {message}"
)


def get_context_info() -> Dict[str, Any]:
    """Collect the non-empty context values for logging."""
    context = {}

    customer_id = customer_id_var.get()
    if customer_id:
        context["customer_id"] = customer_id

    operator_id = operator_id_var.get()
    if operator_id:
        context["operator_id"] = operator_id

    kit_id = kit_id_var.get()
    if kit_id:
        context["kit_id"] = kit_id

    return context


def _inject_context(record) -> None:
    """Read the context variables at emit time, not at bind time."""
    record["extra"].update(
        customer_id=customer_id_var.get(),
        operator_id=operator_id_var.get(),
        kit_id=kit_id_var.get(),
    )


def setup_logging(level: Optional[str] = None) -> None:
    """Configure loguru with context-aware formatting."""
    settings = get_settings()
    level = (level or settings.log_level).upper()

    logger.remove()
    logger.configure(
        extra={"customer_id": None, "operator_id": None, "kit_id": None},
        patcher=_inject_context,
    )

    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<blue>customer_id={extra[customer_id]}</blue> | "
        "<yellow>operator_id={extra[operator_id]}</yellow> | "
        "<magenta>kit_id={extra[kit_id]}</magenta> | <level>{message}</level>",
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if not settings.log_to_file:
        return

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(exist_ok=True)

    logger.add(
        log_dir / "ricambi.log",
        format=_FORMAT,
        level="DEBUG",
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        compression="zip",
    )

    logger.add(
        log_dir / "errors.log",
        format=_FORMAT,
        level="ERROR",
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        compression="zip",
    )


def get_logger(name: Optional[str] = None):
    """Named logger; context values are injected per record by setup_logging."""
    return logger.bind(logger_name=name)


def set_context(
    customer_id: Optional[str] = None,
    operator_id: Optional[str] = None,
    kit_id: Optional[str] = None,
):
    if customer_id is not None:
        customer_id_var.set(customer_id)
    if operator_id is not None:
        operator_id_var.set(operator_id)
    if kit_id is not None:
        kit_id_var.set(kit_id)


def clear_context():
    customer_id_var.set(None)
    operator_id_var.set(None)
    kit_id_var.set(None)


class LoggingContext:
    """Set context values for the duration of a block, restoring the old ones on exit."""

    def __init__(
        self,
        customer_id: Optional[str] = None,
        operator_id: Optional[str] = None,
        kit_id: Optional[str] = None,
    ):
        self.customer_id = customer_id
        self.operator_id = operator_id
        self.kit_id = kit_id
        self._tokens = []

    def __enter__(self):
        for var, value in (
            (customer_id_var, self.customer_id),
            (operator_id_var, self.operator_id),
            (kit_id_var, self.kit_id),
        ):
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []
