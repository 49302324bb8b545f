"""
Shared infrastructure used by the extraction API.
"""
