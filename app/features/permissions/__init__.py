"""
Permission management feature module.

Implements the role/capability matrix, folder permission grants addressed to
users, branches and departments, and the resolver that merges them into an
effective access level.
"""
