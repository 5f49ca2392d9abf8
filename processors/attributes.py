"""SDS attribute report processor module."""

from typing import Any, List, Tuple

from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import sds_attributes

SEPARATOR = "=" * 70


def format_attribute_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def render_attributes(name: str, attributes: List[Tuple[str, Any, str]]) -> List[str]:
    """Render the attributes of one SDS as a table under an "SDS : name" header.

    Args:
        name (str): SDS name
        attributes (List[Tuple[str, Any, str]]): (name, value, type name) triples

    Returns:
        List[str]: Report lines
    """
    lines = [
        SEPARATOR,
        f"SDS : {name}",
        f"  {'Attribute':<17}{'Data Type':<10}{'Value':>15}",
        "-" * 17 + "+" + "-" * 11 + "+" + "-" * 39,
    ]
    for attr_name, value, type_name in attributes:
        text = format_attribute_value(value)
        if "\n" in text:
            # multi-line text attributes such as ECS metadata blocks
            first, *rest = text.splitlines()
            lines.append(f"{attr_name:<20}{type_name:<10}{first}")
            lines.extend(" " * 30 + line for line in rest)
        else:
            lines.append(f"{attr_name:<20}{type_name:<10}{text}")
    return lines


class AttributesProcessor(BaseProcessor):
    """Processor reporting SDS attributes."""

    name = "read_sds_attributes"

    async def validate_input(self, **kwargs) -> bool:
        if "input_path" not in kwargs:
            logger.error("Missing parameter: input_path")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Read the attributes of the selected SDSs.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                sds_names (List[str], optional): SDS names; all SDSs if omitted

        Returns:
            ProcessingResult: Report lines in metadata["report"] and
                {attribute: value} per SDS in metadata["attributes"]
        """
        input_path = kwargs["input_path"]
        logger.info(f"Reading SDS attributes of {input_path}")
        sds_names = kwargs.get("sds_names")
        if not sds_names:
            found = sds_attributes(input_path)
        else:
            found = {}
            for name in sds_names:
                try:
                    found.update(sds_attributes(input_path, [name]))
                except KeyError as e:
                    self.skip(name, e)

        report: List[str] = []
        for name, attributes in found.items():
            report.extend(render_attributes(name, attributes))

        return ProcessingResult(
            status="success",
            message=f"Read attributes of {len(found)} SDS",
            metadata={
                "report": report,
                "attributes": {name: {a: v for a, v, _ in attrs} for name, attrs in found.items()},
                "skipped": list(self.skipped),
            }
        )
