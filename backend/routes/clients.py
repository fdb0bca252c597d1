"""
CRM - Routes Clients
Project tracking, payments and delivery.
"""

from fastapi import APIRouter, Depends
from typing import Optional
from pydantic import BaseModel

from models.client import ClientCreate, ClientStatusUpdate, PaymentUpdate, DeliverClient, NewProject, ClientDocument
from routes.auth import get_current_user
from services import client_delivery

router = APIRouter(prefix="/clients", tags=["Clients"])


class ClientDeleteConfirm(BaseModel):
    confirm: str = ""


@router.get("")
async def list_clients(
    status: Optional[str] = None,
    lead_id: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    clients = await client_delivery.list_clients(status, lead_id)
    return {"clients": clients, "count": len(clients)}


@router.post("")
async def create_client(data: ClientCreate, user: dict = Depends(get_current_user)):
    return await client_delivery.create_client(data.model_dump(), user)


@router.get("/{client_id}", response_model=ClientDocument)
async def get_client(client_id: str, user: dict = Depends(get_current_user)):
    return await client_delivery.get_client(client_id)


@router.put("/{client_id}/status")
async def update_status(client_id: str, data: ClientStatusUpdate, user: dict = Depends(get_current_user)):
    return await client_delivery.update_client_status(client_id, data.status, user)


@router.put("/{client_id}/payment")
async def update_payment(client_id: str, data: PaymentUpdate, user: dict = Depends(get_current_user)):
    return await client_delivery.update_payment(
        client_id, user,
        payment_status=data.payment_status,
        project_value=data.project_value,
        paid_amount=data.paid_amount,
    )


@router.post("/{client_id}/deliver")
async def deliver(client_id: str, data: DeliverClient, user: dict = Depends(get_current_user)):
    return await client_delivery.mark_delivered(client_id, user, data.delivery_notes)


@router.post("/{client_id}/new-project")
async def new_project(client_id: str, data: NewProject, user: dict = Depends(get_current_user)):
    return await client_delivery.start_new_project(client_id, user, data.services, data.project_value)


@router.delete("/{client_id}")
async def delete_client(client_id: str, data: ClientDeleteConfirm, user: dict = Depends(get_current_user)):
    """Body: {"confirm": "CONFIRM"}"""
    await client_delivery.delete_client(client_id, user, data.confirm)
    return {"success": True}
