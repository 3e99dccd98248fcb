"""Lambda handlers.

Contains the S3 object relay handler and its event parsing, staging and upload stages.
"""
