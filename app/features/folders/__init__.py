"""
Folders and their permission grants.
"""
