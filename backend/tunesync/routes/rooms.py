from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/api")


@router.get("/room/{room_name}")
async def check_room(room_name: str, request: Request):
    room = request.app.state.engine.snapshot(room_name)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room
