"""BioLORD-2023 embedding service.

BioLORD-2023 is a biomedical sentence embedding model trained on UMLS ontology,
SNOMED-CT, and biomedical definitions. It produces 768-dimensional vectors and
does well on clinical sentence similarity, which is what matching a patient
summary against trial eligibility text needs.

The model is lazy-loaded on first call to embed() and reused for the lifetime
of the process. Loading takes ~10s and uses ~500MB RAM, so we only do it once.
"""

import asyncio
import logging
import threading

from sentence_transformers import SentenceTransformer

from trial_navigator.config import get_settings
from trial_navigator.constants import EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)

# Module-level singleton. None until the first call to embed().
_model: SentenceTransformer | None = None
_model_lock = threading.Lock()


def _get_model() -> SentenceTransformer:
    """Return the singleton model, instantiating it on first call.

    embed_async() calls this from worker threads, so the first load is done
    under a lock.
    """
    global _model
    if _model is None:
        with _model_lock:
            if _model is None:
                model_name = get_settings().embedding_model
                logger.info("Loading embedding model %s", model_name)
                _model = SentenceTransformer(model_name)
    return _model


def embed(texts: list[str]) -> list[list[float]]:
    """Embed a list of texts.

    All texts are encoded in a single batch; callers should pass the full
    list rather than calling this in a loop.

    Args:
        texts: Texts to embed. For trials, use the document built by
               trial_corpus.build_trial_document; for patients, the query
               built by trial_corpus.build_patient_query.

    Returns:
        List of embedding vectors, one per input text, in input order.
    """
    model = _get_model()
    vectors = model.encode(texts, convert_to_numpy=True)
    return [v.tolist() for v in vectors]


async def embed_async(
    texts: list[str], timeout: float = EMBEDDING_TIMEOUT
) -> list[list[float]]:
    """Run embed() in a worker thread so the event loop is not blocked."""
    return await asyncio.wait_for(asyncio.to_thread(embed, texts), timeout=timeout)
