"""Centralized configuration constants.

All configurable values in one place for easy maintenance.
Security-sensitive settings can be overridden via environment variables.
"""

import os

# File paths
VAULT_FILE = os.environ.get("CREDVAULT_VAULT_FILE", "vault.json")
MASTER_FILE = os.environ.get("CREDVAULT_MASTER_FILE", "master.json")

# Security event log (disabled unless a path is configured)
AUDIT_LOG_FILE = os.environ.get("CREDVAULT_AUDIT_LOG") or None
AUDIT_LOG_MAX_BYTES = int(os.environ.get("CREDVAULT_AUDIT_LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB default
AUDIT_LOG_BACKUP_COUNT = int(os.environ.get("CREDVAULT_AUDIT_LOG_BACKUP_COUNT", 5))

# On-disk format
FORMAT_VERSION = 1

# Master password
MIN_MASTER_PASSWORD_LENGTH = 6

# Argon2id parameters - RFC 9106 second recommended option, scaled down
KDF_TIME_COST = int(os.environ.get("CREDVAULT_KDF_TIME_COST", 3))
KDF_MEMORY_COST = int(os.environ.get("CREDVAULT_KDF_MEMORY_COST", 64 * 1024))  # KiB
KDF_PARALLELISM = int(os.environ.get("CREDVAULT_KDF_PARALLELISM", 4))
MAX_KDF_MEMORY_COST = 4 * 1024 * 1024  # KiB, refuse records demanding more than 4 GiB

# Key material sizes (bytes)
SALT_LENGTH = 16
KEY_LENGTH = 32  # AES-256
VERIFIER_LENGTH = 32
NONCE_LENGTH = 12  # 96-bit nonce for GCM

# Password generation
MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 128
DEFAULT_PASSWORD_LENGTH = 12
