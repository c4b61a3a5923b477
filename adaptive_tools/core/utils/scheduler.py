# adaptive_tools/core/utils/scheduler.py
"""Scheduler pour les tâches planifiées (rafraîchissement des schémas)."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from adaptive_tools.config.logger import logger


class AppScheduler:
    """Gestionnaire de tâches planifiées pour le moteur."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self._jobs = []

    def add_job(self, func, trigger, **trigger_args):
        """
        Ajoute une tâche planifiée.

        Args:
            func: Coroutine ou fonction à exécuter
            trigger: Type de trigger ('cron', 'interval', 'date')
            **trigger_args: Arguments du trigger (hours, minute, id, kwargs...)

        Returns:
            Le job APScheduler créé
        """
        job = self.scheduler.add_job(func, trigger, replace_existing=True, **trigger_args)
        self._jobs.append(job)
        logger.info(f"✅ Job scheduled: {getattr(func, '__name__', func)} with trigger {trigger} {trigger_args}")
        return job

    @property
    def jobs(self):
        return list(self._jobs)

    def start(self):
        """Démarre le scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("🚀 Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def shutdown(self, wait=True):
        """Arrête le scheduler proprement."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("🛑 Scheduler stopped")


# Instance globale du scheduler
app_scheduler = AppScheduler()
