from rental_batch.services.scheduler import SweepScheduler

__all__ = ["SweepScheduler"]
