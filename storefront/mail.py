import logging

import resend

from storefront.settings import get_settings

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, html: str, text: str) -> bool:
    """Send one transactional email through Resend. Returns False on any failure."""
    settings = get_settings()
    if not settings.resend_api_key:
        logger.info("Resend API key not configured, skipping email '%s' to %s", subject, to)
        return False

    resend.api_key = settings.resend_api_key
    try:
        response = resend.Emails.send({
            "from": settings.mail_sender,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        })
    except Exception:
        logger.exception("Failed to send email '%s' to %s", subject, to)
        return False

    if not isinstance(response, dict) or not response.get("id"):
        logger.error("Unexpected Resend response for '%s': %s", subject, response)
        return False
    return True

def send_welcome_email(email: str, name: str | None) -> bool:
    name = name or "Cher client"
    return send_email(
        email,
        "Bienvenue chez Sissan-Sissan",
        f"<p>Bonjour {name},</p><p>Votre compte Sissan-Sissan a bien été créé.</p>",
        f"Bonjour {name}, votre compte Sissan-Sissan a bien été créé.",
    )

def send_password_reset_email(email: str, reset_token: str) -> bool:
    settings = get_settings()
    link = f"{settings.app_url}/reset-password?token={reset_token}"
    minutes = settings.reset_token_ttl_minutes
    return send_email(
        email,
        "Réinitialisation de votre mot de passe",
        f'<p>Cliquez sur <a href="{link}">ce lien</a> pour choisir un nouveau mot de passe. '
        f"Il expire dans {minutes} minutes.</p>",
        f"Ouvrez {link} pour choisir un nouveau mot de passe. Il expire dans {minutes} minutes.",
    )

def send_verification_code_email(email: str, code: str) -> bool:
    minutes = get_settings().reset_code_ttl_minutes
    return send_email(
        email,
        "Votre code de vérification",
        f"<p>Votre code de vérification est <strong>{code}</strong>. Il expire dans {minutes} minutes.</p>",
        f"Votre code de vérification est {code}. Il expire dans {minutes} minutes.",
    )
