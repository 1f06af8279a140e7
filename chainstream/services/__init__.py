# Services package
from chainstream.services.broadcast import BroadcastGateway, DeliveryMeter
from chainstream.services.data_service import DataService
from chainstream.services.entity_store import EntityStore
from chainstream.services.pipeline import EnrichmentPipeline, PipelineTask

__all__ = [
    "BroadcastGateway",
    "DeliveryMeter",
    "DataService",
    "EntityStore",
    "EnrichmentPipeline",
    "PipelineTask",
]
