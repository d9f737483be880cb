"""
Pipeline Registry
Maps each ONDC action to the pipeline that handles it
"""
from typing import Dict, Optional, Type

from ondc_adapter.commerce.interface import CommercePlatform
from ondc_adapter.core.callbacks import CallbackDispatcher
from ondc_adapter.core.retry import RetryPolicy
from ondc_adapter.pipelines.base import ActionPipeline
from ondc_adapter.pipelines.cancel import CancelPipeline
from ondc_adapter.pipelines.confirm import ConfirmPipeline
from ondc_adapter.pipelines.init import InitPipeline
from ondc_adapter.pipelines.search import SearchPipeline
from ondc_adapter.pipelines.select import SelectPipeline
from ondc_adapter.pipelines.status import StatusPipeline
from ondc_adapter.pipelines.update import UpdatePipeline

PIPELINES: Dict[str, Type[ActionPipeline]] = {
    "search": SearchPipeline,
    "select": SelectPipeline,
    "init": InitPipeline,
    "confirm": ConfirmPipeline,
    "status": StatusPipeline,
    "update": UpdatePipeline,
    "cancel": CancelPipeline,
}


def get_pipeline(
    action: str,
    platform: CommercePlatform,
    dispatcher: CallbackDispatcher,
    policy: Optional[RetryPolicy] = None,
) -> ActionPipeline:
    """
    Build the pipeline for an action

    Raises:
        ValueError: if the action has no pipeline
    """
    try:
        pipeline_class = PIPELINES[action]
    except KeyError:
        raise ValueError(f"Unsupported ONDC action: {action}") from None
    return pipeline_class(platform, dispatcher, policy=policy)
