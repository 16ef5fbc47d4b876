import logging
import sys
from pathlib import Path
from typing import Optional

def setup_logger(
    name: str = "drought_pipeline",
    level=logging.INFO,
    log_dir: Optional[str] = None
) -> logging.Logger:
    """
    Configures the process logger once: console (stdout) plus an optional
    file under `log_dir`. Component loggers created with
    logging.getLogger(__name__) propagate into it.
    """
    # Force standard output to handle emojis (UTF-8) on Windows
    if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8")

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent adding duplicate handlers if setup is called multiple times
    if logger.hasHandlers():
        return logger

    # Format: Timestamp - Component - Level - Message
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path / f"{name}.log", encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
