"""
Canned responses: reusable reply templates grouped in folders
"""
from helpdesk import db
from helpdesk.models.canned_response import CannedResponseFolder, CannedResponse

FOLDER_TYPES = ['general', 'personal']
VISIBILITIES = ['all', 'myself']


def _visible_filter(user_id):
    return db.or_(
        CannedResponse.visibility == 'all',
        db.and_(CannedResponse.visibility == 'myself', CannedResponse.owner_id == user_id)
    )


def get_visible_grouped(tenant_id, user_id):
    """
    Responses an agent may use, grouped by folder. Folders with nothing
    visible to the agent are left out.

    Returns:
        List of folder dicts, each with a 'responses' list
    """
    responses = CannedResponse.query.filter(
        CannedResponse.tenant_id == tenant_id,
        _visible_filter(user_id)
    ).order_by(CannedResponse.title.asc()).all()

    by_folder = {}
    for response in responses:
        by_folder.setdefault(response.folder_id, []).append(response)

    folders = CannedResponseFolder.query.filter(
        CannedResponseFolder.tenant_id == tenant_id,
        CannedResponseFolder.id.in_(list(by_folder.keys()))
    ).order_by(CannedResponseFolder.name.asc()).all() if by_folder else []

    return [
        dict(folder.to_dict(), responses=[r.to_dict() for r in by_folder[folder.id]])
        for folder in folders
    ]


# ========== FOLDERS ==========

def create_folder(tenant_id, name, folder_type='general', owner_id=None):
    if not name or not name.strip():
        raise ValueError("Folder name is required")
    if folder_type not in FOLDER_TYPES:
        raise ValueError(f"Invalid folder type: {folder_type}")

    folder = CannedResponseFolder(
        tenant_id=tenant_id,
        name=name.strip(),
        folder_type=folder_type,
        owner_id=owner_id if folder_type == 'personal' else None
    )
    db.session.add(folder)
    db.session.commit()
    return folder


def update_folder(folder, data):
    if 'name' in data:
        if not data['name'] or not data['name'].strip():
            raise ValueError("Folder name is required")
        folder.name = data['name'].strip()
    db.session.commit()
    return folder


def delete_folder(folder):
    """Deletes the folder and every response in it"""
    db.session.delete(folder)
    db.session.commit()


# ========== RESPONSES ==========

def create_response(tenant_id, folder_id, title, content, visibility='all', created_by_id=None):
    if not title or not title.strip():
        raise ValueError("Title is required")
    if not content or not content.strip():
        raise ValueError("Content is required")
    if not folder_id:
        raise ValueError("Folder is required")
    if visibility not in VISIBILITIES:
        raise ValueError(f"Invalid visibility: {visibility}")

    folder = CannedResponseFolder.query.filter_by(id=folder_id, tenant_id=tenant_id).first()
    if not folder:
        raise ValueError("Folder not found")

    response = CannedResponse(
        tenant_id=tenant_id,
        folder_id=folder.id,
        title=title.strip(),
        content=content,
        visibility=visibility,
        owner_id=created_by_id if visibility == 'myself' else None
    )
    db.session.add(response)
    db.session.commit()
    return response


def update_response(response, data, updated_by_id=None):
    if 'title' in data:
        if not data['title'] or not data['title'].strip():
            raise ValueError("Title is required")
        response.title = data['title'].strip()
    if 'content' in data:
        if not data['content'] or not data['content'].strip():
            raise ValueError("Content is required")
        response.content = data['content']
    if 'folder_id' in data:
        folder = CannedResponseFolder.query.filter_by(id=data['folder_id'], tenant_id=response.tenant_id).first()
        if not folder:
            raise ValueError("Folder not found")
        response.folder_id = folder.id
    if 'visibility' in data:
        if data['visibility'] not in VISIBILITIES:
            raise ValueError(f"Invalid visibility: {data['visibility']}")
        response.visibility = data['visibility']
        if response.visibility == 'myself':
            response.owner_id = response.owner_id or updated_by_id
        else:
            response.owner_id = None

    db.session.commit()
    return response


def delete_response(response):
    db.session.delete(response)
    db.session.commit()
