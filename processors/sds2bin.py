"""SDS to raw binary processor module."""

from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import hdf_type_name, open_sd, read_sds_layer, select_sds_names
from utils.file_operations import prepare_output, safe_delete


class Sds2BinProcessor(BaseProcessor):
    """Processor dumping one SDS or layer as raw binary."""

    name = "sds2bin"

    async def validate_input(self, **kwargs) -> bool:
        required = {"input_path", "output_path", "sds_name"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Write the SDS values in native byte order, row after row.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output binary file
                sds_name (str): SDS name, optionally with a layer extension

        Returns:
            ProcessingResult: Dimensions and data type of the written values

        Raises:
            ValueError: If the name selects more than one layer
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])

        with open_sd(input_path) as sd:
            names = select_sds_names(sd, [kwargs["sds_name"]])
            if len(names) != 1:
                raise ValueError(f"{kwargs['sds_name']} selects {len(names)} layers; select one")
            info, _, _, data = read_sds_layer(sd, names[0])

        try:
            data.tofile(str(output_path))
        except OSError:
            safe_delete(output_path)
            raise

        type_name = hdf_type_name(info.data_type)
        logger.info(f"Wrote {names[0]} {data.shape} {type_name} to {output_path}")
        return ProcessingResult(
            status="success",
            message=f"Wrote {names[0]} as raw binary",
            output_path=str(output_path),
            metadata={
                "sds": names[0],
                "dims": list(data.shape),
                "data_type": type_name,
                "bytes": int(data.nbytes),
            }
        )
