from careconnect import app

if __name__ == "__main__":
    print("🚀 Starting CareConnect billing API...")
    app.run(host="0.0.0.0", port=5000, debug=True)
