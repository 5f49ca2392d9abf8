"""Base processor module for the SDS tools.

Every tool is a processor: an async callable that validates its keyword
arguments, does its work and returns a ProcessingResult. Errors raised
while processing are logged and turned into an error result so the
command-line front-ends only have to look at the status.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from loguru import logger
from pydantic import BaseModel

class ProcessingResult(BaseModel):
    """Model for standardized processing results.

    Attributes:
        status (str): Processing status ("success" or "error")
        message (str): Human-readable description of the result
        output_path (Optional[str]): Path to the output file, if any
        metadata (Dict[str, Any]): Output SDS names, dimensions, counts and
            report text, depending on the tool
    """
    status: str
    message: str
    output_path: Optional[str] = None
    metadata: Dict[str, Any] = {}

class BaseProcessor(ABC):
    """Abstract base class for all processors.

    Attributes:
        result (Optional[ProcessingResult]): The result of the last processing operation
        skipped (List[str]): SDS names skipped during the last run
    """

    name = "processor"

    def __init__(self):
        self.result = None
        self.skipped: List[str] = []

    @abstractmethod
    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters before processing.

        Args:
            **kwargs: Arbitrary keyword arguments specific to each processor

        Returns:
            bool: True if inputs are valid, False otherwise

        Note:
            Implementations log the reason before returning False. A
            malformed value may also raise ValueError, which __call__
            reports the same way.
        """
        pass

    @abstractmethod
    async def process(self, **kwargs) -> ProcessingResult:
        """Execute the processing logic.

        Args:
            **kwargs: Arbitrary keyword arguments specific to each processor

        Returns:
            ProcessingResult: The result of the processing operation
        """
        pass

    async def cleanup(self) -> None:
        """Release resources after processing. The default does nothing."""
        pass

    def skip(self, sds_name: str, reason: Any) -> None:
        """Record an SDS that could not be processed and carry on."""
        logger.warning(f"{self.name}: skipping {sds_name}: {reason}")
        self.skipped.append(sds_name)

    async def __call__(self, **kwargs) -> ProcessingResult:
        """Validate, process and clean up.

        Args:
            **kwargs: Arbitrary keyword arguments passed to validate_input and process

        Returns:
            ProcessingResult: The result of the processing operation; any
                exception becomes a result with status "error"
        """
        self.skipped = []
        try:
            if not await self.validate_input(**kwargs):
                return ProcessingResult(
                    status="error",
                    message="Invalid input parameters"
                )

            self.result = await self.process(**kwargs)
            return self.result
        except Exception as e:
            logger.error(f"{self.name} failed: {e}")
            return ProcessingResult(
                status="error",
                message=str(e)
            )
        finally:
            await self.cleanup()
