from datetime import timedelta

from huddle import create_app
from huddle.models import (CHANNEL_TEXT, CHANNEL_VOICE, ROLE_MEMBER, ROLE_OWNER, Attachment, Channel,
                           Message, RefreshToken, Server, ServerMembership, User, db, utcnow)

DEMO_PASSWORD = 'password123'

app = create_app()

with app.app_context():
    db.create_all()

    # Start from a clean slate
    for model in (RefreshToken, Attachment, Message, ServerMembership, Channel, Server, User):
        model.query.delete()
    db.session.commit()

    users = {}
    for email, username in [('user@huddle.dev', 'HuddleUser'),
                            ('bot@huddle.dev', 'Bot'),
                            ('admin@huddle.dev', 'Admin')]:
        user = User(email=email, username=username)
        user.set_password(DEMO_PASSWORD)
        db.session.add(user)
        users[username] = user
    db.session.flush()

    lobby = Server(name='My server', icon_color='#5865f2', owner=users['HuddleUser'])
    gamers = Server(name='Gamers', icon_color='#23a559', owner=users['HuddleUser'])
    dev = Server(name='Development', icon_color='#f23f43', owner=users['Admin'])
    db.session.add_all([lobby, gamers, dev])
    db.session.flush()

    for user, server, role in [(users['HuddleUser'], lobby, ROLE_OWNER),
                               (users['Bot'], lobby, ROLE_MEMBER),
                               (users['HuddleUser'], gamers, ROLE_OWNER),
                               (users['HuddleUser'], dev, ROLE_MEMBER),
                               (users['Admin'], dev, ROLE_OWNER)]:
        ServerMembership.create(user.id, server.id, role)

    general = Channel.create(lobby.id, 'general', CHANNEL_TEXT)
    off_topic = Channel.create(lobby.id, 'off_topic', CHANNEL_TEXT)
    Channel.create(lobby.id, 'voice', CHANNEL_VOICE)
    Channel.create(lobby.id, 'music', CHANNEL_VOICE)
    Channel.create(gamers.id, 'main', CHANNEL_TEXT)
    Channel.create(gamers.id, 'games', CHANNEL_TEXT)
    Channel.create(gamers.id, 'voice', CHANNEL_VOICE)
    Channel.create(dev.id, 'code', CHANNEL_TEXT)
    Channel.create(dev.id, 'discussion', CHANNEL_TEXT)
    db.session.flush()

    now = utcnow()
    for channel, author, content, minutes_ago in [
            (general, users['Bot'], 'Hi! Welcome to Huddle!', 60),
            (general, users['Bot'], 'Servers, channels, live messages and typing indicators.', 58),
            (general, users['HuddleUser'], 'Nice, the live updates work great', 30),
            (off_topic, users['HuddleUser'], 'Hey all, how is it going?', 120),
            (off_topic, users['Admin'], 'Good! Working on new features', 118)]:
        message = Message.create(channel.id, author.id, content)
        message.created_at = now - timedelta(minutes=minutes_ago)

    db.session.commit()
    print("Database setup complete!")
