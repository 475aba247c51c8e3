"""FastAPI dependency providers.

Collaborators are built once per process; tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from video_processor.middleware.request_context import RequestContext, get_request_context
from video_processor.services.credential_provider import AuthHubCredentialProvider
from video_processor.services.explainer_lookup import SupabaseExplainerLookup
from video_processor.services.inspection_service import InspectionService
from video_processor.services.pipeline import MergeUploadPipeline
from video_processor.services.remote_fetcher import RemoteFetcher
from video_processor.services.scratch import ScratchManager
from video_processor.services.tekmetric_client import TekmetricClient
from video_processor.services.upload_client import UploadClient
from video_processor.services.video_merger import VideoMerger


@lru_cache
def get_credential_provider() -> AuthHubCredentialProvider:
    # One instance so the token cache is shared across requests
    return AuthHubCredentialProvider()


@lru_cache
def get_tekmetric_client() -> TekmetricClient:
    return TekmetricClient()


def get_pipeline() -> MergeUploadPipeline:
    return MergeUploadPipeline(
        credentials=get_credential_provider(),
        explainers=SupabaseExplainerLookup(),
        fetcher=RemoteFetcher(),
        merger=VideoMerger(),
        tekmetric=get_tekmetric_client(),
        uploader=UploadClient(),
    )


def get_inspection_service() -> InspectionService:
    return InspectionService(get_credential_provider(), get_tekmetric_client())


def get_scratch_manager() -> ScratchManager:
    """A fresh manager per request; never shared."""
    return ScratchManager()


Context = Annotated[RequestContext, Depends(get_request_context)]
Pipeline = Annotated[MergeUploadPipeline, Depends(get_pipeline)]
Inspections = Annotated[InspectionService, Depends(get_inspection_service)]
Scratch = Annotated[ScratchManager, Depends(get_scratch_manager)]
