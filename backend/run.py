from app import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Socket.IO server also runs the arcade countdowns as background tasks
    socketio.run(app, debug=True, allow_unsafe_werkzeug=True)
