from hachoir.metadata.metadata import registerExtractor, Metadata, MultipleMetadata
from hachoir.metadata.safe import fault_tolerant

from hachoir_udf.parser.file_system.udf import UDF
from hachoir_udf.parser.file_system.udf_descriptors import FILE_TYPE_NAME


class UDF_Metadata(MultipleMetadata):
    DEBUG = False

    # noinspection PyAttributeOutsideInit
    def extract(self, p_udf):
        l_volume = p_udf.get_volume()
        if l_volume.identifier:
            self.title = l_volume.identifier

        l_file_set = l_volume.read_file_set()
        self.readTimestamp("creation_date", l_file_set.recording_time)
        if not l_volume.identifier and l_file_set.logical_volume_identifier:
            self.title = l_file_set.logical_volume_identifier

        for l_entry in l_volume.root_directory():
            if l_entry.is_parent or l_entry.name is None:
                continue
            if self.DEBUG:
                print("adding file[] %s -> %r" % (l_entry.name, l_entry.icb_location))
            meta = Metadata(self)
            meta.filename = l_entry.name
            if l_entry.is_directory:
                meta.file_attr = "directory"
            self.readFileEntry(meta, l_volume, l_entry)
            self.addGroup("file[]", meta, "File \"%s\"" % meta.get('filename'))

    @fault_tolerant
    def readFileEntry(self, meta, p_volume, p_entry):
        l_info = p_volume.read_file_entry(p_entry.icb_location)
        meta.file_type = FILE_TYPE_NAME.get(l_info.file_type, "Unknown (%u)" % l_info.file_type)
        meta.file_size = l_info.information_length
        if l_info.modification_time is not None:
            meta.last_modification = l_info.modification_time

    @fault_tolerant
    def readTimestamp(self, key, value):
        if value is None:
            return
        setattr(self, key, value)


registerExtractor(UDF, UDF_Metadata)
