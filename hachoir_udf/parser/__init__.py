from hachoir_udf.parser.file_system import UDF  # noqa
