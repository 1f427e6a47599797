"""Default configuration values for Cutover deployments."""

# Deployment request defaults, used when neither CLI, file nor env sets a value
DEFAULT_REQUEST_CONFIG: dict[str, str | int] = {
    "app_name": "my-app",
    "host_port": 3000,
    "container_port": 3000,
    "health_check_path": "/",
    "restart_policy": "unless-stopped",
}

# Image reference parts (<repository>:<tag>)
DEFAULT_IMAGE_REPOSITORY = "my-app"
DEFAULT_IMAGE_TAG = "latest"

# Revision suffix for the derived container name
DEFAULT_REVISION = "latest"

# Config file names searched in the working directory, in order
CONFIG_FILE_NAMES: tuple[str, ...] = ("cutover.yml", "cutover.yaml")

# Dotenv file loaded before resolving environment variables
DEFAULT_ENV_FILE = ".env"

DEFAULT_ARTIFACT_DIR = "."
