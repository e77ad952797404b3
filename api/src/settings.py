from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='allow', env_prefix='lms_billing_api_')

    admin_token: str | None = Field(default=None)
    app_base_url: str = Field(default='http://127.0.0.1:3000')

    invoice_duration_sec: int = Field(default=7200)
    invoice_currency: str = Field(default='IDR')
    invoice_payment_methods: list[str] = Field(default=['BCA', 'BNI', 'BRI', 'MANDIRI', 'OVO', 'DANA'])


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='allow', env_prefix='lms_billing_postgres_')

    host: str = Field(default='127.0.0.1')
    port: int = Field(default=5432)
    user: str = Field(default='postgres')
    password: str = Field(default='postgres')
    db: str = Field(default='lms_billing')

    # Overrides everything above, e.g. `sqlite+aiosqlite:///billing.db` for local runs
    url: str | None = Field(default=None)

    def get_url(self, driver: str | None, db: str | None = None):
        if self.url is not None:
            return self.url

        scheme = f'postgresql{f"+{driver}" if driver else ""}'
        return f'{scheme}://{self.user}:{self.password}@{self.host}:{self.port}/{db or self.db}'


class KafkaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='allow', env_prefix='lms_billing_kafka_')

    # Publishing is disabled when not set
    bootstrap_servers: str | None = Field(default=None)
    payment_topic: str = Field(default='payment')
    enrollment_topic: str = Field(default='enrollment')


class XenditSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='allow', env_prefix='lms_billing_xendit_')

    secret_key: str | None = Field(default=None)
    # Shared secret sent by Xendit in the `x-callback-token` header
    callback_token: str | None = Field(default=None)
    base_url: str = Field(default='https://api.xendit.co')
    connection_timeout_sec: float = 60.0


settings = Settings()
db_settings = DatabaseSettings()
kafka_settings = KafkaSettings()
xendit_settings = XenditSettings()
