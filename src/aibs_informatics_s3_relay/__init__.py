"""AIBS Informatics S3 object relay Lambda.

Relays newly created S3 objects from a source bucket to a destination bucket by
staging each object in Lambda ephemeral storage before re-uploading it.
"""
