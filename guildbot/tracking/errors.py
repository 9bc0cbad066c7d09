from __future__ import annotations

from typing import Tuple


class TrackingError(Exception):
    """Base error for character-tracking failures."""


class StorageError(TrackingError):
    pass


class MalformedRowError(StorageError):
    pass


class CharacterNotFoundError(TrackingError):
    pass


def parse_error_message(error: Exception) -> str:
    """
    Map raw exceptions into short, human-readable messages.
    Used for admin notifications and logs.
    """
    s, t = str(error), type(error).__name__
    if isinstance(error, CharacterNotFoundError):
        return f"🔍 Not Found: {s.split(chr(10))[0][:100]}"
    if isinstance(error, MalformedRowError):
        return f"🧩 Malformed Row: {s.split(chr(10))[0][:100]}"
    if isinstance(error, StorageError) or t in ("OperationalError", "IntegrityError", "DatabaseError"):
        return "❌ Storage Error: The character database rejected or lost the request."
    if "Timeout" in t or "ETIMEDOUT" in s:
        return "⏱️ Timeout: The ranking site took too long to answer."
    if "429" in s:
        return "⚠️ Rate Limited: The ranking site is throttling requests."
    if "Connect" in t or "ECONNREFUSED" in s:
        return "❌ Connection Error: Unable to reach the ranking site."
    return f"❌ {t}: {s.split(chr(10))[0][:100]}"


def format_user_friendly_error(error: Exception) -> str:
    """
    Short, safe error message suitable for end users.
    """
    t = type(error).__name__
    if isinstance(error, CharacterNotFoundError):
        return "Personagem não encontrado em nenhuma guilda monitorada."
    if isinstance(error, StorageError) or t in ("OperationalError", "IntegrityError", "DatabaseError"):
        return "Erro de conexão com o banco de dados. Por favor, tente novamente mais tarde."
    if "Timeout" in t:
        return "A busca está demorando mais que o esperado. Por favor, tente novamente."
    return "Ocorreu um erro ao processar o comando. Por favor, tente novamente mais tarde."


def error_messages(error: Exception) -> Tuple[str, str]:
    """
    Convenience helper returning (admin_message, user_message).
    """
    return parse_error_message(error), format_user_friendly_error(error)
