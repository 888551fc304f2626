# Models package
from helpdesk.models.user import User
from helpdesk.models.tenant import Tenant, TenantMembership
from helpdesk.models.group import Group, GroupMembership
from helpdesk.models.audit_log import AuditLog
from helpdesk.models.notification import Notification

# CRM Models
from helpdesk.models.company import Company
from helpdesk.models.contact import Contact

# Support/Ticketing Models
from helpdesk.models.tag import Tag, ticket_tags
from helpdesk.models.counter import Counter
from helpdesk.models.sla_policy import SLAPolicy, SLATarget
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.models.ticket_status_history import TicketStatusHistory
from helpdesk.models.automation import Automation
from helpdesk.models.canned_response import CannedResponseFolder, CannedResponse

# Knowledge Base
from helpdesk.models.knowledge_base import KBCategory, KBArticle

# Workspace configuration
from helpdesk.models.top_banner import TopBanner
from helpdesk.models.installed_app import InstalledApp

# AI
from helpdesk.models.ai_settings import AISettings, AIConfidenceConfig
from helpdesk.models.ai_action_log import AIActionLog
from helpdesk.models.ai_usage import AIUsage

# Tasks and time tracking
from helpdesk.models.task import Task, TaskNote, Subtask
from helpdesk.models.time_entry import TimeEntry
