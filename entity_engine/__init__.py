"""
Metadata-driven entity engine for the membership console.
"""
