"""FitBuddy: conversational fitness companion."""

from dotenv import load_dotenv

load_dotenv()
