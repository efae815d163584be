"""
Manager loaded by the subprocess tests through --manager slow_manager:SlowManager.
"""

import logging
import time

from restshell.http.envelope import response_wrapper


logger = logging.getLogger("slow_manager")

SLOW_SECONDS = 5.0


@response_wrapper
def ping(request):
    return {"message": "pong"}, 200, None


@response_wrapper
def slow(request):
    logger.warning("slow request started")
    time.sleep(SLOW_SECONDS)
    return {"slept": SLOW_SECONDS}, 200, None


class SlowManager:

    def register_routes(self, router):
        router.get("/ping")(ping)
        router.get("/slow")(slow)
