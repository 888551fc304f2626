"""
Unified Search Service
Provides search functionality across tickets, customers and help articles within a tenant
"""
import logging
from flask import url_for
from helpdesk import db
from helpdesk.models.ticket import Ticket
from helpdesk.models.contact import Contact
from helpdesk.models.company import Company
from helpdesk.models.knowledge_base import KBArticle
from helpdesk.models.tenant import Tenant
from helpdesk.utils.input_validators import sanitize_sql_like_pattern

logger = logging.getLogger(__name__)


class UnifiedSearchService:
    """
    Service for searching across multiple data types in one workspace
    """

    @staticmethod
    def _pattern(query):
        return f'%{sanitize_sql_like_pattern(query)}%'

    @staticmethod
    def search_all(tenant_id, query, limit=5):
        """
        Search across all data types and return categorized results

        Args:
            tenant_id: Current tenant ID for data scoping
            query: Search query string
            limit: Max results per category

        Returns:
            dict: {'results': {category: [...]}, 'total_count': int}
        """
        results = {
            'tickets': UnifiedSearchService.search_tickets(tenant_id, query, limit),
            'contacts': UnifiedSearchService.search_contacts(tenant_id, query, limit),
            'companies': UnifiedSearchService.search_companies(tenant_id, query, limit),
            'articles': UnifiedSearchService.search_articles(tenant_id, query, limit),
        }

        return {
            'results': results,
            'total_count': sum(len(items) for items in results.values())
        }

    @staticmethod
    def search_tickets(tenant_id, query, limit=5):
        """
        Search support tickets by number, subject and description
        """
        try:
            pattern = UnifiedSearchService._pattern(query)
            tickets = Ticket.query.filter(
                Ticket.tenant_id == tenant_id,
                db.or_(
                    Ticket.ticket_number.ilike(pattern, escape='\\'),
                    Ticket.subject.ilike(pattern, escape='\\'),
                    Ticket.description.ilike(pattern, escape='\\')
                )
            ).order_by(Ticket.updated_at.desc()).limit(limit).all()

            return [{
                'id': ticket.id,
                'ticket_number': ticket.ticket_number,
                'subject': ticket.subject,
                'status': ticket.status,
                'priority': ticket.priority,
                'url': url_for('support.get_ticket', ticket_id=ticket.id)
            } for ticket in tickets]
        except Exception as e:
            logger.error(f"Error searching tickets: {e}")
            return []

    @staticmethod
    def search_contacts(tenant_id, query, limit=5):
        """
        Search contacts by name, email and phone
        """
        try:
            pattern = UnifiedSearchService._pattern(query)
            contacts = Contact.query.filter(
                Contact.tenant_id == tenant_id,
                db.or_(
                    Contact.name.ilike(pattern, escape='\\'),
                    Contact.email.ilike(pattern, escape='\\'),
                    Contact.phone.ilike(pattern, escape='\\')
                )
            ).order_by(Contact.updated_at.desc()).limit(limit).all()

            return [{
                'id': contact.id,
                'name': contact.display_name,
                'email': contact.email,
                'company': contact.company.name if contact.company else None,
                'url': url_for('crm.get_contact', contact_id=contact.id)
            } for contact in contacts]
        except Exception as e:
            logger.error(f"Error searching contacts: {e}")
            return []

    @staticmethod
    def search_companies(tenant_id, query, limit=5):
        """
        Search companies by name, domain and industry
        """
        try:
            pattern = UnifiedSearchService._pattern(query)
            companies = Company.query.filter(
                Company.tenant_id == tenant_id,
                db.or_(
                    Company.name.ilike(pattern, escape='\\'),
                    Company.domain.ilike(pattern, escape='\\'),
                    Company.industry.ilike(pattern, escape='\\')
                )
            ).order_by(Company.updated_at.desc()).limit(limit).all()

            return [{
                'id': company.id,
                'name': company.name,
                'industry': company.industry,
                'website': company.website,
                'url': url_for('crm.get_company', company_id=company.id)
            } for company in companies]
        except Exception as e:
            logger.error(f"Error searching companies: {e}")
            return []

    @staticmethod
    def search_articles(tenant_id, query, limit=5):
        """
        Search knowledge base articles (any status; agents see drafts too)
        """
        try:
            pattern = UnifiedSearchService._pattern(query)
            articles = KBArticle.query.filter(
                KBArticle.tenant_id == tenant_id,
                db.or_(
                    KBArticle.title.ilike(pattern, escape='\\'),
                    KBArticle.excerpt.ilike(pattern, escape='\\'),
                    KBArticle.content.ilike(pattern, escape='\\')
                )
            ).order_by(KBArticle.updated_at.desc()).limit(limit).all()

            tenant = db.session.get(Tenant, tenant_id)
            return [{
                'id': article.id,
                'title': article.title,
                'status': article.status,
                'category': article.category.name if article.category else None,
                'url': url_for('help_center.article', tenant_slug=tenant.slug, slug=article.slug)
                if article.status == 'published' else None
            } for article in articles]
        except Exception as e:
            logger.error(f"Error searching articles: {e}")
            return []
