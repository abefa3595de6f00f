import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

def setup_logging(log_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for clipvault.

    Writes to ``clipvault.log`` inside ``log_dir`` unless ``log_path`` is given.
    Nothing is written to the console so the progress bar stays intact.

    Args:
        log_dir: Directory for the default log file (created if missing)
        debug: If True, log at DEBUG level including ffmpeg command lines
        log_path: Optional explicit log file path
    """
    log_file = Path(log_path) if log_path else (Path(log_dir) / "clipvault.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    # botocore and httpx are chatty at DEBUG
    for noisy in ("botocore", "boto3", "urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger("clipvault")
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
