"""Job parameters and job status tracking.

A job is one source object's set of renditions, identified by (bucket, key).
"""
