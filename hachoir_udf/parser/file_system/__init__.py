from hachoir_udf.parser.file_system.udf import UDF  # noqa
