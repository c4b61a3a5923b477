"""
Job de rafraîchissement périodique des schémas d'outils.

Ce module contient la tâche planifiée qui réaligne le cache sur les serveurs MCP.
"""

from adaptive_tools.config.logger import logger


async def refresh_stale_schemas(refresh_scheduler, force: bool = False):
    """
    Rafraîchit tous les schémas périmés.

    Appelée périodiquement (toutes les `schema_refresh_interval_hours` heures).
    Une erreur ne doit jamais arrêter le scheduler : elle est journalisée.

    Returns:
        RefreshSummary, ou None si le catalogue n'a pas pu être lu
    """
    try:
        summary = await refresh_scheduler.refresh_all_stale(force=force)
    except Exception as e:
        logger.error(f"Erreur dans le job de rafraîchissement des schémas: {e}")
        return None

    if summary.failed:
        logger.warning(f"Rafraîchissement terminé avec {summary.failed} échec(s): {summary.errors}")
    return summary
