"""Import all models to register them with SQLAlchemy metadata."""
from traintracker.models.base import Base
from traintracker.models.train_report import TrainReport
