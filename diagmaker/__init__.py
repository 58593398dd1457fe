from diagmaker.config import APP_VERSION as __version__
