from cryptography.fernet import Fernet
from quiz_pipeline.core.config import settings

fernet = Fernet(settings.FERNET_KEY)

def encrypt_secret(value: str) -> str:
    return fernet.encrypt(value.encode()).decode()

def decrypt_secret(encrypted_value: str) -> str:
    return fernet.decrypt(encrypted_value.encode()).decode()
