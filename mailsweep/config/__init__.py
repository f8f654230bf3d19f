"""
Configuration module.
"""

from .settings import Config, load_config_from_env_file
from .vault import CredentialVault, get_vault, generate_master_key

__all__ = ['Config', 'load_config_from_env_file', 'CredentialVault', 'get_vault', 'generate_master_key']
