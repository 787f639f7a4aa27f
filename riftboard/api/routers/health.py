from fastapi import APIRouter

from riftboard.api.deps import server_cache

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """
    Health check con el estado de la caché de leaderboards

    **Información incluida:**
    - Entradas, tags y aciertos de la caché de últimas partidas y movers
    """
    return {
        "status": "ok",
        "cache": {
            "leaderboards": server_cache().get_stats(),
        },
    }
