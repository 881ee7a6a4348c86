# Where: compose_lifecycle/constants.py
# What: Property keys, defaults, and command timeouts for compose lifecycles.
# Why: Keep the documented names in one place for config, plugin, and tests.
from __future__ import annotations

# Override properties read by the configuration resolver.
PROP_STACK = "docker.compose.stack"
PROP_FILES = "docker.compose.files"
PROP_ENV_FILES = "docker.compose.envFiles"
PROP_LIFECYCLE = "docker.compose.lifecycle"
PROP_PROJECT_NAME = "docker.compose.projectName"
PROP_WAIT_RUNNING = "docker.compose.waitForRunning.services"
PROP_WAIT_HEALTHY = "docker.compose.waitForHealthy.services"
PROP_TIMEOUT_SECONDS = "docker.compose.timeoutSeconds"
PROP_POLL_SECONDS = "docker.compose.pollSeconds"
PROP_STATE_DIR = "docker.compose.stateDir"

# Properties published for consuming test code.
PROP_STATE_FILE = "COMPOSE_STATE_FILE"
PROP_COMPOSE_PROJECT = "COMPOSE_PROJECT_NAME"

ENV_LOG_CONFIG = "COMPOSE_LIFECYCLE_LOG_CONFIG"

DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_POLL_SECONDS = 2
DEFAULT_STATE_DIR = "build/compose-state"

PROJECT_NAME_PREFIX = "test-"
PROJECT_NAME_FALLBACK = "test-project"
PROJECT_LABEL = "com.docker.compose.project"

COMPOSE_COMMAND = ("docker", "compose")
LEGACY_COMPOSE_COMMAND = ("docker-compose",)
DOCKER_COMMAND = ("docker",)

# Seconds allowed per external command.
UP_TIMEOUT = 300.0
DOWN_TIMEOUT = 120.0
PS_TIMEOUT = 30.0
LOGS_TIMEOUT = 60.0
CLEANUP_TIMEOUT = 15.0
VERSION_TIMEOUT = 10.0
