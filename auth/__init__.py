"""auth/ -- Authentication and authorization package for Quillpost.

Layer rule: auth/ imports stdlib, third-party libraries, core/, and the posts
domain model/mapper (for the posts-by-author view and cascading delete).
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
