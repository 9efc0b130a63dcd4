"""
ZIMMR Backend — Customer Service
=================================

What:  Customer CRUD, scoped to the calling craftsman.
Who:   /customers routes; SpaceService uses get_owned_customer() for its
       access checks.

Deletion:
    A customer's appointments are deleted in the same transaction (spaces
    cascade in the database). Customers with invoices cannot be deleted:
    invoices are accounting records and must keep their customer.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.exceptions import DatabaseError, NotFoundError, ValidationError, ZimmrError
from zimmr.models.appointment import Appointment
from zimmr.models.customer import Customer
from zimmr.models.invoice import Invoice
from zimmr.schemas.appointment import AppointmentResponse
from zimmr.schemas.customer import CustomerCreate, CustomerResponse, CustomerUpdate
from zimmr.security import TokenUser
from zimmr.services.access import ensure_owner, partial_changes
from zimmr.services.appointment_service import appointment_query, to_appointment_response

logger = logging.getLogger(__name__)


class CustomerService:

    async def get_owned_customer(
        self, db: AsyncSession, customer_id: int, user: TokenUser
    ) -> Customer:
        try:
            customer = await db.get(Customer, customer_id)
        except Exception as e:
            logger.error("Database error fetching customer %d: %s", customer_id, str(e))
            raise DatabaseError(message="Could not retrieve the customer. Please try again.")
        if customer is None:
            raise NotFoundError(resource="customer", resource_id=str(customer_id))
        ensure_owner(customer.craftsman_id, user, "customer", customer_id)
        return customer

    async def list_customers(
        self,
        db: AsyncSession,
        user: TokenUser,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        service_type: Optional[str] = None,
    ) -> List[CustomerResponse]:
        query = select(Customer)
        if not user.is_admin:
            query = query.where(Customer.craftsman_id == user.craftsman_id)
        if name:
            query = query.where(Customer.name.ilike(f"%{name}%"))
        if phone:
            query = query.where(Customer.phone.ilike(f"%{phone}%"))
        if service_type:
            query = query.where(Customer.service_type.ilike(f"%{service_type}%"))
        query = query.order_by(Customer.name)

        try:
            result = await db.execute(query)
            return [CustomerResponse.model_validate(c) for c in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing customers: %s", str(e))
            raise DatabaseError(message="Could not load customers. Please try again.")

    async def get_customer(
        self, db: AsyncSession, customer_id: int, user: TokenUser
    ) -> CustomerResponse:
        return CustomerResponse.model_validate(await self.get_owned_customer(db, customer_id, user))

    async def create_customer(
        self, db: AsyncSession, data: CustomerCreate, user: TokenUser
    ) -> CustomerResponse:
        customer = Customer(craftsman_id=user.craftsman_id, **data.model_dump())
        try:
            db.add(customer)
            await db.flush()
            await db.refresh(customer)
        except Exception as e:
            logger.error("Database error creating customer: %s", str(e))
            raise DatabaseError(message="Could not create the customer. Please try again.")
        logger.info("Customer %d created for craftsman %s", customer.id, user.craftsman_id)
        return CustomerResponse.model_validate(customer)

    async def update_customer(
        self, db: AsyncSession, customer_id: int, data: CustomerUpdate, user: TokenUser
    ) -> CustomerResponse:
        customer = await self.get_owned_customer(db, customer_id, user)
        changes = partial_changes(data, ("name",))
        try:
            for field, value in changes.items():
                setattr(customer, field, value)
            await db.flush()
        except Exception as e:
            logger.error("Database error updating customer %d: %s", customer_id, str(e))
            raise DatabaseError(message="Could not update the customer. Please try again.")
        return CustomerResponse.model_validate(customer)

    async def delete_customer(
        self, db: AsyncSession, customer_id: int, user: TokenUser
    ) -> CustomerResponse:
        """
        Raises:
            ValidationError: the customer still has invoices
        """
        customer = await self.get_owned_customer(db, customer_id, user)
        snapshot = CustomerResponse.model_validate(customer)
        try:
            invoice_count = await db.scalar(
                select(func.count(Invoice.id)).where(Invoice.customer_id == customer_id)
            )
            if invoice_count:
                raise ValidationError(
                    "Cannot delete a customer that has invoices",
                    context={"invoices": int(invoice_count)},
                )

            await db.execute(delete(Appointment).where(Appointment.customer_id == customer_id))
            await db.delete(customer)
            await db.flush()
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Database error deleting customer %d: %s", customer_id, str(e))
            raise DatabaseError(message="Could not delete the customer. Please try again.")

        logger.info("Customer %d deleted with their appointments", customer_id)
        return snapshot

    async def list_customer_appointments(
        self, db: AsyncSession, customer_id: int, user: TokenUser
    ) -> List[AppointmentResponse]:
        await self.get_owned_customer(db, customer_id, user)
        try:
            result = await db.execute(
                appointment_query()
                .where(Appointment.customer_id == customer_id)
                .order_by(Appointment.scheduled_at.desc())
            )
            return [to_appointment_response(a) for a in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing appointments of customer %d: %s", customer_id, str(e))
            raise DatabaseError(message="Could not load appointments. Please try again.")


customer_service = CustomerService()
