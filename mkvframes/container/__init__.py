"""
Matroska container layer.

- ebml_parser: EBML primitives, track descriptors and block/cluster parsing
- mkv_demuxer: Streaming async MKV demuxer yielding raw frame records
- byte_source: Adapters turning buffers, files and stream readers into async byte sources
"""
