"""Landsat QA band unpacking processor module.

This module unpacks the bit-packed Landsat QA band (a uint16 GeoTIFF)
into one uint8 GeoTIFF per quality field, or combines the selected fields
into a single mask. Two band layouts are supported: the pre-collection
Landsat 8 OLI QA band and the Collection-1 BQA band of Landsat 4-8.

Two-bit confidence fields hold a level: 0 undetermined, 1 low, 2 medium
and 3 high. A confidence field is flagged where its level is at or above
the level requested for it.
"""

from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import rasterio
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from utils.bit_utils import extract_bits
from utils.file_operations import prepare_output, safe_delete

CONFIDENCE_LEVELS: Dict[str, int] = {
    "undefined": 0,
    "low": 1,
    "med": 2,
    "high": 3,
}
DEFAULT_CONFIDENCE = "med"


@dataclass(frozen=True)
class QaField:
    """A quality field of a QA band.

    Attributes:
        key (str): Option name selecting the field
        suffix (str): Output file name suffix
        start (int): Lowest bit of the field
        nbits (int): Width of the field, 1 or 2
        confidence (bool): Whether the 2-bit value is a confidence level;
            other 2-bit fields are written as the raw value
    """
    key: str
    suffix: str
    start: int
    nbits: int = 1
    confidence: bool = False


OLI_FIELDS: List[QaField] = [
    QaField("fill", "fill", 0),
    QaField("drop_frame", "dropped_frame", 1),
    QaField("terrain_occl", "terrain_occl", 2),
    QaField("water", "water", 4, 2, True),
    QaField("cloud_shadow", "cloud_shadow", 6, 2, True),
    QaField("veg", "vegetation", 8, 2, True),
    QaField("snow_ice", "snow_ice", 10, 2, True),
    QaField("cirrus", "cirrus", 12, 2, True),
    QaField("cloud", "cloud", 14, 2, True),
]


def collection_fields(satellite: int) -> List[QaField]:
    """Return the Collection-1 BQA fields of a Landsat satellite.

    Note:
        Bit 1 is the dropped pixel flag on Landsat 4-7 and the terrain
        occlusion flag on Landsat 8. Only Landsat 8 has a cirrus field.
    """
    fields = [QaField("fill", "fill", 0)]
    if satellite == 8:
        fields.append(QaField("terrain_occl", "terrain_occl", 1))
    else:
        fields.append(QaField("drop_pixel", "dropped_pixel", 1))
    fields += [
        QaField("radiometric_sat", "radiometric_sat", 2, 2),
        QaField("cloud", "cloud", 4),
        QaField("cloud_confidence", "cloud_confidence", 5, 2, True),
        QaField("cloud_shadow", "cloud_shadow", 7, 2, True),
        QaField("snow_ice", "snow_ice", 9, 2, True),
    ]
    if satellite == 8:
        fields.append(QaField("cirrus", "cirrus", 11, 2, True))
    return fields


def satellite_number(path: str) -> int:
    """Read the Landsat number from a product name such as "LC08_L1TP_...".

    Raises:
        ValueError: If characters 2-3 of the file name are not 04 to 08
    """
    name = Path(path).name
    digits = name[2:4]
    if not digits.isdigit() or not 4 <= int(digits) <= 8:
        raise ValueError(f"Cannot tell the Landsat satellite from the file name {name}")
    return int(digits)


def confidence_level(name: Optional[str]) -> int:
    if name is None:
        return CONFIDENCE_LEVELS[DEFAULT_CONFIDENCE]
    key = name.strip().lower()
    if key not in CONFIDENCE_LEVELS or key == "undefined":
        raise ValueError(f"Confidence level must be low, med or high, got {name}")
    return CONFIDENCE_LEVELS[key]


def unpack_field(qa: np.ndarray, field: QaField, level: int) -> np.ndarray:
    """Unpack one field of a QA band.

    Returns:
        np.ndarray: uint8 0/1 flags, or the raw 2-bit value for a 2-bit
            field that is not a confidence level
    """
    values = extract_bits(qa, field.start, field.nbits)
    if field.confidence:
        values = values >= level
    return values.astype(np.uint8)


def combine_fields(qa: np.ndarray, fields: List[QaField], levels: Dict[str, int]) -> np.ndarray:
    """Flag pixels where any selected field is set or meets its level."""
    combined = np.zeros(qa.shape, dtype=bool)
    for field in fields:
        values = extract_bits(qa, field.start, field.nbits)
        if field.confidence:
            combined |= values >= levels[field.key]
        else:
            combined |= values >= 1
    return combined.astype(np.uint8)


class QaUnpackProcessor(BaseProcessor):
    """Shared flow of the QA band unpacking processors."""

    @abstractmethod
    def fields(self, input_path: str) -> List[QaField]:
        """Return the fields of the QA band layout read from `input_path`."""
        pass

    def select(self, available: List[QaField], requested: Dict[str, Optional[str]],
               all_level: Optional[str]) -> Dict[str, int]:
        """Resolve the selected fields and their confidence levels.

        Args:
            available (List[QaField]): Fields of the band layout
            requested (Dict[str, Optional[str]]): Field keys and optional levels
            all_level (Optional[str]): Level applied to every field when all
                are requested

        Returns:
            Dict[str, int]: Level per selected field key, every field when
                nothing was requested

        Raises:
            ValueError: If a field does not exist in this band layout
        """
        keys = [field.key for field in available]
        unknown = [key for key in requested if key not in keys]
        if unknown:
            raise ValueError(f"Field(s) {', '.join(unknown)} not available; "
                             f"expected one of {', '.join(keys)}")
        if all_level is not None or not requested:
            return {key: confidence_level(all_level) for key in keys}
        return {key: confidence_level(level) for key, level in requested.items()}

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for QA unpacking.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): QA band GeoTIFF
                output_path (str): Output base name, or the output file when combining

        Returns:
            bool: True if the parameters are present and the input exists
        """
        required = {"input_path", "output_path"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        if not Path(kwargs["input_path"]).is_file():
            raise FileNotFoundError(f"Input file not found: {kwargs['input_path']}")
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Unpack the selected QA fields.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): QA band GeoTIFF
                output_path (str): Output base name, or the output file when combining
                fields (Dict[str, Optional[str]], optional): Field keys mapped to
                    a confidence level name; every field if omitted
                all_level (str, optional): Select every field at this level
                combine (bool, optional): Write one combined mask

        Returns:
            ProcessingResult: Output files and the number of flagged pixels per output
        """
        input_path = str(kwargs["input_path"])
        output_path = str(kwargs["output_path"])
        available = self.fields(input_path)
        levels = self.select(available, kwargs.get("fields") or {}, kwargs.get("all_level"))
        selected = [field for field in available if field.key in levels]
        combine = bool(kwargs.get("combine", False))
        logger.info(f"Unpacking {', '.join(levels)} from {input_path}")

        with rasterio.open(input_path) as src:
            qa = src.read(1)
            profile = src.profile.copy()
        if qa.dtype != np.uint16:
            logger.warning(f"QA band is {qa.dtype}, expected uint16")
        profile.update(dtype=rasterio.uint8, count=1, nodata=None)

        if combine:
            outputs = {output_path: combine_fields(qa, selected, levels)}
        else:
            outputs = {f"{output_path}_{field.suffix}.tif": unpack_field(qa, field, levels[field.key])
                       for field in selected}

        written: List[Path] = []
        flagged: Dict[str, int] = {}
        try:
            for path, data in outputs.items():
                target = prepare_output(path)
                written.append(target)
                with rasterio.open(target, "w", **profile) as dst:
                    dst.write(data, 1)
                flagged[str(target)] = int(np.count_nonzero(data))
                logger.debug(f"Wrote {target}: {flagged[str(target)]} non-zero pixels")
        except Exception:
            for target in written:
                safe_delete(target)
            raise

        return ProcessingResult(
            status="success",
            message=f"Wrote {len(written)} QA output(s)",
            output_path=str(written[0]) if combine else output_path,
            metadata={"outputs": [str(p) for p in written], "flagged": flagged, "levels": levels}
        )


class OliQaProcessor(QaUnpackProcessor):
    """Processor for the pre-collection Landsat 8 OLI QA band."""

    name = "unpack_oli_qa"

    def fields(self, input_path: str) -> List[QaField]:
        return OLI_FIELDS


class CollectionQaProcessor(QaUnpackProcessor):
    """Processor for the Collection-1 BQA band of Landsat 4-8."""

    name = "unpack_collection_qa"

    def fields(self, input_path: str) -> List[QaField]:
        satellite = satellite_number(input_path)
        logger.debug(f"{Path(input_path).name}: Landsat {satellite}")
        return collection_fields(satellite)
