# Shared Library
# Configuration loading and file logging
