from typing import Optional, Dict, Any, List
import os
from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Prompt
import keyring
import logging

logger = logging.getLogger(__name__)

console = Console()

KEYRING_SERVICE = 'samevents'

class ConfigManager:
    """Manage application configuration and environment variables"""

    def __init__(self, env_file: str = None):
        """Initialize config manager"""
        if env_file:
            self.env_file = env_file
        else:
            # Get the project root directory (two levels up from this file)
            project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
            self.env_file = os.path.join(project_root, '.env')
            logger.debug(f"Looking for .env file at: {self.env_file}")

        self.config = {}
        self.load_config()

    def load_config(self):
        """Load configuration from environment and .env file"""
        if os.path.exists(self.env_file):
            logger.info(f"Loading environment variables from {self.env_file}")
            load_dotenv(self.env_file)

        self.config['app'] = self._load_app_config()
        self.config['google'] = self._load_google_config()
        self.config['microsoft'] = self._load_microsoft_config()
        self.config['firebase'] = self._load_firebase_config()
        self.config['facebook'] = {
            'access_token': os.getenv('FACEBOOK_ACCESS_TOKEN') or self._get_secret('facebook_access_token')
        }
        self.config['places'] = {
            'api_key': os.getenv('GOOGLE_PLACES_API_KEY_SERVER') or self._get_secret('google_places_api_key')
        }
        self.config['development'] = self._load_dev_config()

    def _load_app_config(self) -> Dict[str, Any]:
        """Load application settings"""
        default_db = f"sqlite:///{os.path.join(os.path.dirname(self.env_file), 'events.db')}"
        return {
            'timezone': os.getenv('TIMEZONE', 'America/Toronto'),
            'database_url': os.getenv('DATABASE_URL', default_db),
            'session_ttl_days': int(os.getenv('SESSION_TTL_DAYS', 7)),
            'session_cookie': os.getenv('SESSION_COOKIE_NAME', 'connect.sid'),
            'secure_cookies': self._parse_bool(os.getenv('SECURE_COOKIES', 'false')),
            'calendar_name': os.getenv('CALENDAR_NAME', 'Sam Hébert - Événements'),
            'calendar_description': os.getenv('CALENDAR_DESCRIPTION', 'Calendrier des spectacles de Sam Hébert'),
            'cors_origins': self._parse_list(os.getenv('CORS_ORIGINS', 'http://localhost:5173,http://localhost:3000')),
            'http_timeout': float(os.getenv('HTTP_TIMEOUT', 10)),
        }

    def _load_google_config(self) -> Dict[str, Any]:
        """Load Google OAuth and service account settings."""
        return {
            'client_id': os.getenv('GOOGLE_CLIENT_ID') or self._get_secret('google_client_id'),
            'client_secret': os.getenv('GOOGLE_CLIENT_SECRET') or self._get_secret('google_client_secret'),
            'calendar_id': os.getenv('GOOGLE_CALENDAR_ID', 'primary'),
            'redirect_uri': os.getenv('GOOGLE_REDIRECT_URI', 'http://localhost:5000/api/auth/google/callback'),
            'service_account_file': self._expand_path(os.getenv('GOOGLE_SERVICE_ACCOUNT_FILE', '')),
        }

    def _load_microsoft_config(self) -> Dict[str, Any]:
        """Load Microsoft Graph application settings"""
        return {
            'client_id': os.getenv('OUTLOOK_CLIENT_ID') or self._get_secret('outlook_client_id'),
            'client_secret': os.getenv('OUTLOOK_CLIENT_SECRET') or self._get_secret('outlook_client_secret'),
            'authority': os.getenv('OUTLOOK_AUTHORITY', 'https://login.microsoftonline.com/common'),
        }

    def _load_firebase_config(self) -> Dict[str, Any]:
        return {
            'project_id': os.getenv('FIREBASE_PROJECT_ID') or os.getenv('VITE_FIREBASE_PROJECT_ID'),
        }

    def _load_dev_config(self) -> Dict[str, Any]:
        """Load development settings"""
        return {
            'debug': self._parse_bool(os.getenv('DEBUG', 'false')),
            'log_level': os.getenv('LOG_LEVEL', 'INFO')
        }

    def _expand_path(self, path: str) -> str:
        """Expand user and environment variables in path"""
        if not path:
            return path
        return os.path.expandvars(os.path.expanduser(path))

    def _parse_bool(self, value: str) -> bool:
        """Parse string boolean value"""
        return str(value).lower() in ('true', '1', 'yes', 'on')

    def _parse_list(self, value: str) -> List[str]:
        return [item.strip() for item in value.split(',') if item.strip()]

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        parts = key.split('.')
        value = self.config
        for part in parts:
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return default
        return value if value is not None else default

    def missing(self) -> List[str]:
        """List the optional integrations that are not configured"""
        checks = {
            'google.client_id': 'Google OAuth client ID (calendar connect)',
            'google.client_secret': 'Google OAuth client secret (calendar connect)',
            'microsoft.client_id': 'Microsoft application ID (Outlook token refresh)',
            'firebase.project_id': 'Firebase project ID (Google sign-in)',
        }
        return [f"- {key}: {message}" for key, message in checks.items() if not self.get(key)]

    def setup_wizard(self):
        """Interactive setup wizard for configuration"""
        console.print("[bold blue]Événements Setup Wizard[/bold blue]")
        console.print("Secrets go to the system keyring, everything else to .env\n")

        console.print("\n[bold cyan]Google Calendar[/bold cyan]")
        client_id = Prompt.ask("Google OAuth client ID", default="")
        client_secret = Prompt.ask("Google OAuth client secret", password=True, default="")
        self._save_secret('google_client_id', client_id)
        self._save_secret('google_client_secret', client_secret)

        console.print("\n[bold cyan]Microsoft Outlook[/bold cyan]")
        self._save_secret('outlook_client_id', Prompt.ask("Application (client) ID", default=""))
        self._save_secret('outlook_client_secret', Prompt.ask("Client secret", password=True, default=""))

        console.print("\n[bold cyan]Venue search[/bold cyan]")
        self._save_secret('facebook_access_token', Prompt.ask("Facebook Graph token", password=True, default=""))
        self._save_secret('google_places_api_key', Prompt.ask("Google Places server key", password=True, default=""))

        if not os.path.exists(self.env_file):
            self._create_env_file()

        self.load_config()

        console.print("\n[bold green]Setup complete! Configuration has been saved.[/bold green]")

    def _save_secret(self, key: str, value: str):
        """Save secret to system keyring"""
        if value:  # Only save if value is not empty
            keyring.set_password(KEYRING_SERVICE, key, value)

    def _get_secret(self, key: str) -> Optional[str]:
        """Get secret from system keyring"""
        try:
            return keyring.get_password(KEYRING_SERVICE, key)
        except Exception:
            return None

    def _create_env_file(self):
        """Create .env file with non-sensitive settings"""
        env_content = """# Application Settings
TIMEZONE=America/Toronto
SESSION_TTL_DAYS=7
GOOGLE_CALENDAR_ID=primary
GOOGLE_REDIRECT_URI=http://localhost:5000/api/auth/google/callback

# Development Settings
DEBUG=false
LOG_LEVEL=INFO"""

        with open(self.env_file, 'w') as f:
            f.write(env_content)


config_manager = ConfigManager()
