"""
Runtime settings for the salon back-office API.

Everything is read from environment variables once at import time. Values that
are part of business rules (edit window, OTP lifetime, token lifetime) are not
configurable and live next to the code that enforces them.
"""
import os


class Settings:
    def __init__(self, environ=None):
        env = os.environ if environ is None else environ

        self.app_env = env.get("APP_ENV", "development")
        self.port = int(env.get("PORT", 8000))
        self.log_level = env.get("LOG_LEVEL", "INFO").upper()

        # Database
        self.database_url = env.get("DATABASE_URL") or env.get("MONGODB_URI")
        self.database_name = env.get("DATABASE_NAME", "salon_management")

        # Auth
        self.jwt_secret = env.get("JWT_SECRET")

        # OTP email
        self.smtp_host = env.get("SMTP_HOST", "smtp.gmail.com")
        self.smtp_port = int(env.get("SMTP_PORT", 587))
        self.smtp_user = env.get("SMTP_USER")
        self.smtp_pass = env.get("SMTP_PASS")
        self.smtp_from = env.get("SMTP_FROM", "noreply@salon.com")

        # WhatsApp (Twilio)
        self.twilio_account_sid = env.get("TWILIO_ACCOUNT_SID")
        self.twilio_auth_token = env.get("TWILIO_AUTH_TOKEN")
        self.twilio_whatsapp_number = env.get("TWILIO_WHATSAPP_NUMBER")
        self.admin_whatsapp_number = env.get("ADMIN_WHATSAPP_NUMBER")

        # Google Sheets
        self.google_sheets_id = env.get("GOOGLE_SHEETS_ID")
        self.google_credentials_json = env.get("GOOGLE_SERVICE_ACCOUNT_CREDENTIALS")
        self.google_key_file = env.get("GOOGLE_SERVICE_ACCOUNT_KEY_FILE")

        self.salon_name = env.get("SALON_NAME", "HUSN Beauty Salon")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_whatsapp_number)

    @property
    def sheets_configured(self) -> bool:
        return bool(self.google_sheets_id and (self.google_credentials_json or self.google_key_file))


settings = Settings()
