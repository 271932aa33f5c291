import uvicorn
from leadview.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "leadview.main:app",
        reload=settings.is_development,
        workers=1
    )
