"""Configuration management for the chat history relay."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "3001"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
APP_ENV = os.getenv("APP_ENV", "development")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Storage Configuration ("supabase" or "memory")
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase")
CONVERSATIONS_TABLE = os.getenv("CONVERSATIONS_TABLE", "conversations")

# Completion Configuration
COMPLETION_MODEL = os.getenv("COMPLETION_MODEL", "llama-3.3-70b-versatile")
COMPLETION_TEMPERATURE = float(os.getenv("COMPLETION_TEMPERATURE", "0.7"))
COMPLETION_MAX_TOKENS = int(os.getenv("COMPLETION_MAX_TOKENS", "200"))

# History listing
TITLE_MAX_LENGTH = 50
DEFAULT_TITLE = "New Chat"

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
