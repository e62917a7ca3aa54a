"""
Organization directory: branches and departments users belong to.
"""
