"""Constants for layer-cache."""

# Project marker directory
LAYER_CACHE_DIR = ".layer-cache"

# Configuration file (inside LAYER_CACHE_DIR)
CONFIG_FILE = "config.yaml"

# Per-entry file names
IMAGE_ID_FILE = "imageID"
MANIFEST_FILE = "manifest.json"
BLOBS_DIR = "blobs"

# Subdirectories of the cache root
LOCAL_SUBDIR = "layers"
MIRROR_SUBDIR = "mirror"

# Environment variables
ENV_CONFIG = "LAYER_CACHE_CONFIG"
ENV_CACHE_DIR = "LAYER_CACHE_DIR"

DEFAULT_POLICY_PATH = "/etc/containers/policy.json"

# Version
LAYER_CACHE_VERSION = "0.1.0"
