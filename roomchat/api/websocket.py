from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from roomchat.core.log_config import logger
from roomchat.database.postgres import get_session_factory
from roomchat.dependencies.auth_dependencies import authenticate_websocket
from roomchat.dependencies.service_dependencies import get_websocket_manager
from roomchat.services.realtime_service import Connection, RealtimeService
from roomchat.utils.websocket_manager import WebsocketManager

router = APIRouter(prefix="/ws", tags=["websocket"])


@router.websocket("")
async def websocket_endpoint(
    websocket: WebSocket,
    manager: WebsocketManager = Depends(get_websocket_manager),
    session_factory=Depends(get_session_factory),
):
    async with session_factory() as db:
        user = await authenticate_websocket(websocket, db)
        if user is None:
            logger.warning("WebSocket connection rejected: invalid or missing token.")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
            return
        conn = Connection(websocket=websocket, user_id=user.id, username=user.username)
        await RealtimeService(db, manager).handle_connect(conn)

    try:
        while True:
            data = await websocket.receive_text()
            logger.debug(f"Data received from {conn.username} ({conn.user_id}): {data}")
            # one short-lived session per event
            async with session_factory() as db:
                await RealtimeService(db, manager).handle_frame(conn, data)

    except WebSocketDisconnect as e:
        logger.info(f"User {conn.username} disconnected. Code: {e.code}, Reason: {e.reason}")
    except Exception as e:
        logger.error(f"An unhandled error occurred in websocket for {conn.username} ({conn.user_id}): {e}", exc_info=True)
    finally:
        async with session_factory() as db:
            await RealtimeService(db, manager).handle_disconnect(conn)
