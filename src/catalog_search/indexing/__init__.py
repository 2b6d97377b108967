"""
Batch index builder.

Reads the relational catalog in contiguous id chunks, loads each chunk's
child relations, resolves the release to PUID join with the configured
strategy and writes one flat document per root entity.
"""
