# pitch_ia/pitch_prompts.py
import logging
import re
from typing import Tuple

logger = logging.getLogger("pitch_ia")


PITCH_SYSTEM_PROMPT = """
Tu es un assistant spécialisé dans la création de pitchs structurés.
Tu dois TOUJOURS répondre dans un format STRICT avec 6 sections numérotées en français.
Chaque section doit être sur SA PROPRE LIGNE, commençant par le numéro suivi d'un point,
puis le label entre crochets, puis le contenu.

EXEMPLE DE FORMAT OBLIGATOIRE:

1. [Problème] Texte du problème ici
2. [Solution] Texte de la solution ici
3. [Marché] Texte du marché ici
4. [Valeur] Texte de la valeur ici
5. [Canaux] Texte des canaux ici
6. [Modèle] Texte du modèle ici

IMPORTANT:
- Ne mets RIEN avant la première section.
- Ne mets RIEN après la dernière section.
- Une seule section par ligne.
- Utilise EXACTEMENT ce format avec les numéros, points, crochets et labels en français.
""".strip()


PITCH_USER_PROMPT = """
Génère un pitch structuré pour ce projet en utilisant EXACTEMENT le format ci-dessous (une ligne par section) :

1. [Problème] Décris le problème spécifique que ce projet résout
2. [Solution] Décris la solution concrète que ce projet apporte
3. [Marché] Décris le marché cible et l'opportunité
4. [Valeur] Décris la proposition de valeur unique
5. [Canaux] Décris les canaux de distribution/acquisition
6. [Modèle] Décris le modèle économique

Description du projet : {description}

Réponds UNIQUEMENT avec les 6 lignes au format ci-dessus, sans texte avant ou après.
""".strip()


def unsafe_string_format(dest_string: str, print_unused_keys_report: bool = True, **kwargs) -> str:
    """
    Replace {key} placeholders with the values passed in kwargs.

    Unlike str.format, only the passed keys are looked up: other braces are left
    untouched, and braces inside the substituted values are never re-interpreted.
    """
    missing_keys = []

    def replacer(match):
        key = match.group(1)
        if key in kwargs:
            return str(kwargs[key])
        missing_keys.append(key)
        return match.group(0)

    result = re.sub(r"\{(\w+)\}", replacer, dest_string)
    if missing_keys and print_unused_keys_report:
        logger.info(f"Missing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}")
    return result


def render_pitch_prompts(description: str) -> Tuple[str, str]:
    """Return the (system, user) instruction pair for one project description."""
    return PITCH_SYSTEM_PROMPT, unsafe_string_format(PITCH_USER_PROMPT, description=description.strip())
