import os
from dotenv import load_dotenv

# config.py reads the environment at import time
load_dotenv()

from helpdesk import create_app, db  # noqa: E402

app = create_app(os.getenv('FLASK_ENV') or 'default')


@app.shell_context_processor
def make_shell_context():
    """`flask shell` preloads the db and the core helpdesk models"""
    from helpdesk import models

    names = ('User', 'Tenant', 'TenantMembership', 'Ticket', 'TicketMessage', 'Contact', 'Company', 'Task')
    context = {name: getattr(models, name) for name in names}
    context['db'] = db
    return context


if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
