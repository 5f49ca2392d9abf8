"""File system operations utility module.

Helpers the processors use to check inputs, prepare output locations
and remove partial outputs after a failure.
"""

import shutil
from pathlib import Path
from typing import List, Union
from loguru import logger

def ensure_directory(directory: Path) -> None:
    """Ensure a directory exists, creating it if necessary.

    Args:
        directory (Path): Path to the directory to ensure exists
    """
    directory.mkdir(parents=True, exist_ok=True)

def safe_delete(path: Path) -> None:
    """Delete a file or directory, logging instead of raising on failure.

    Args:
        path (Path): Path to the file or directory to delete

    Note:
        Used to remove partially written outputs after a processor error,
        where the original error is the one worth reporting.
    """
    try:
        if path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        logger.debug(f"Deleted: {path}")
    except OSError as e:
        logger.error(f"Failed to delete {path}: {str(e)}")

def prepare_output(output_path: Union[str, Path]) -> Path:
    """Create the parent directory of an output file and remove any old copy.

    Args:
        output_path (Union[str, Path]): Output file path

    Returns:
        Path: The output path
    """
    path = Path(output_path)
    ensure_directory(path.parent)
    if path.exists():
        logger.debug(f"Replacing existing output {path}")
        path.unlink()
    return path

def check_input_files(paths: List[Union[str, Path]]) -> List[Path]:
    """Return the input paths, raising if any of them does not exist.

    Raises:
        FileNotFoundError: If an input file is missing
    """
    files = [Path(p) for p in paths]
    missing = [str(p) for p in files if not p.is_file()]
    if missing:
        raise FileNotFoundError(f"Input file(s) not found: {', '.join(missing)}")
    return files
