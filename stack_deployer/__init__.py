"""
stack-deployer: idempotent create-or-update deployment of infrastructure stacks
"""

__version__ = "0.1.0"
