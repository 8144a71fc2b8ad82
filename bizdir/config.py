from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BIZDIR_")

    # Record store
    database_url: str = "sqlite:///./bizdir.sqlite3"

    # Asset service (object store front)
    asset_service_url: str = "http://127.0.0.1:5000/api/assets"
    asset_folder: str = "business-images"
    store_timeout_seconds: float = 30.0

    # Records
    identifier_prefix: str = "BIZ"
    calling_code: str = "+94"

    # Image limits
    max_image_bytes: int = 5 * 1024 * 1024
    max_business_images: int = 5
    max_products: int = 20


settings = Settings()
