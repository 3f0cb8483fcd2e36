from hachoir_udf.metadata.file_system import UDF_Metadata  # noqa
