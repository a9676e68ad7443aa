from datetime import datetime, timezone

from fastapi import APIRouter

from storefront.database import DbSessionDep
from storefront.dependencies.site_settings import get_setting
from storefront.schemas import envelope

DEFAULT_PRIVACY_POLICY = """# Politique de Confidentialité

## Introduction

Chez Sissan-Sissan, nous accordons une grande importance à la protection de vos données personnelles.

## Données collectées

Nous collectons les données suivantes :
- Prénom et nom de famille
- Adresse e-mail
- Numéro de téléphone
- Adresse de livraison

## Utilisation des données

Vos données sont utilisées pour traiter vos commandes, vous contacter à leur sujet et améliorer nos services.

## Vos droits

Vous pouvez recevoir une copie de vos données, les corriger ou nous demander de les supprimer.

## Contact

Pour toute question, veuillez nous contacter via notre page de contact."""

DEFAULT_TERMS_OF_SERVICE = """# Conditions Générales d'Utilisation

## Objet

Les présentes conditions régissent l'utilisation de la boutique en ligne Sissan-Sissan.

## Commandes

Toute commande passée sur la boutique vaut acceptation des prix et des descriptions des produits disponibles à la vente.

## Livraison

Les délais de livraison sont donnés à titre indicatif. Vous pouvez suivre votre commande avec son numéro et votre numéro de téléphone.

## Annulation

Une commande peut être annulée tant qu'elle n'a pas été expédiée.

## Contact

Pour toute question, veuillez nous contacter via notre page de contact."""

router = APIRouter(
    prefix="/api/pages",
    tags=["pages"],
    responses={404: {"description": "Not found"}},
)

def page_content(session: DbSessionDep, field: str, default: str) -> dict:
    """Page text stored under the ``pages`` setting, or the built-in default"""
    setting = get_setting(session, "pages")
    if setting is not None and isinstance(setting.value, dict) and setting.value.get(field):
        return {"content": setting.value[field], "last_updated": setting.updated_at}
    return {"content": default, "last_updated": datetime.now(timezone.utc)}

@router.get("/privacy")
def privacy_policy(session: DbSessionDep):
    return envelope(page_content(session, "privacyPolicy", DEFAULT_PRIVACY_POLICY))

@router.get("/terms")
def terms_of_service(session: DbSessionDep):
    return envelope(page_content(session, "termsOfService", DEFAULT_TERMS_OF_SERVICE))
